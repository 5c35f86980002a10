import logging

import pytest

from leadmagnet_service.templates import (
    DEFAULT_FROM,
    PLACEHOLDERS,
    TemplateResolver,
    apply_placeholders,
    default_email_html,
    default_subject,
    format_identity,
    parse_identity,
    render_template,
)

VALUES = {
    "document_title": "The Guide",
    "document_description": "All of it",
    "sender_name": "Ada",
    "sender_email": "ada@example.com",
}


def test_apply_placeholders_replaces_every_occurrence():
    text = "{{document_title}} / {{document_title}} by {{sender_name}} <{{sender_email}}>"
    assert apply_placeholders(text, VALUES) == "The Guide / The Guide by Ada <ada@example.com>"


def test_apply_placeholders_leaves_unknown_tokens_and_plain_text():
    assert apply_placeholders("Hi {{first_name}}!", VALUES) == "Hi {{first_name}}!"
    assert apply_placeholders("No tokens here", VALUES) == "No tokens here"
    assert apply_placeholders("{{ document_title }}", VALUES) == "{{ document_title }}"


def test_apply_placeholders_is_not_recursive_and_does_not_escape():
    values = dict(VALUES, document_title="<b>{{sender_name}}</b>")
    assert apply_placeholders("{{document_title}}", values) == "<b>{{sender_name}}</b>"


def test_apply_placeholders_missing_value_becomes_empty():
    values = dict(VALUES, document_description=None)
    assert apply_placeholders("[{{document_description}}]", values) == "[]"


def test_identity_helpers():
    assert format_identity("Ada", "ada@example.com") == "Ada <ada@example.com>"
    assert parse_identity(DEFAULT_FROM) == ("HTD Solutions", "info@htd.solutions")
    assert parse_identity("solo@example.com") == ("solo@example.com", "solo@example.com")


def test_default_email_html_includes_title_and_optional_description():
    html = default_email_html("The Guide", "All of it")
    assert "Here's your document!" in html
    assert '"The Guide"' in html
    assert "All of it" in html
    assert "#0a0e1a" in html

    without = default_email_html("The Guide", None)
    assert "#1a1f2e" not in without
    assert default_subject("The Guide") == "Your free resource: The Guide"


def test_render_text_template_is_wrapped_in_light_shell():
    template = {
        "subject": "Your copy of {{document_title}}",
        "html_body": "<p>Hello from {{sender_name}}</p>",
        "body_format": "text",
    }
    subject, html = render_template(template, VALUES)
    assert subject == "Your copy of The Guide"
    assert "<p>Hello from Ada</p>" in html
    assert "#f6f9fc" in html
    assert "p{margin:0;}" in html
    assert "#0a0e1a" not in html


def test_render_html_template_is_used_verbatim():
    template = {"subject": "S", "html_body": "<div>{{document_title}}</div>", "body_format": "html"}
    assert render_template(template, VALUES) == ("S", "<div>The Guide</div>")


@pytest.mark.asyncio
async def test_resolver_uses_defaults_without_sender_or_template(core):
    doc = {"slug": "guide", "title": "The Guide", "description": None, "sender_id": None, "email_template_id": None}
    resolved = await core.resolver.resolve(doc)

    assert resolved.from_identity == DEFAULT_FROM
    assert resolved.subject == "Your free resource: The Guide"
    assert resolved.html == default_email_html("The Guide", None)


@pytest.mark.asyncio
async def test_resolver_uses_assigned_sender_and_template(core):
    sender = await core.persistence.add_sender("Ada", "ada@example.com")
    template = await core.persistence.add_template(
        "welcome", "{{document_title}} from {{sender_name}}", "<p>{{document_description}} {{sender_email}}</p>"
    )
    doc = {
        "slug": "guide",
        "title": "The Guide",
        "description": "All of it",
        "sender_id": sender["id"],
        "email_template_id": template["id"],
    }
    resolved = await core.resolver.resolve(doc)

    assert resolved.from_identity == "Ada <ada@example.com>"
    assert resolved.subject == "The Guide from Ada"
    assert resolved.html == "<p>All of it ada@example.com</p>"


@pytest.mark.asyncio
async def test_resolver_falls_back_when_references_are_dangling(core, caplog):
    doc = {
        "slug": "guide",
        "title": "The Guide",
        "description": "All of it",
        "sender_id": "missing-sender",
        "email_template_id": "missing-template",
    }
    with caplog.at_level(logging.WARNING):
        resolved = await core.resolver.resolve(doc)

    assert resolved.from_identity == DEFAULT_FROM
    assert resolved.subject == default_subject("The Guide")
    assert "no longer exists" in caplog.text


@pytest.mark.asyncio
async def test_resolver_honours_configured_default_identity(core):
    resolver = TemplateResolver(core.persistence, default_from="Docs <docs@example.com>")
    resolved = await resolver.resolve({"slug": "g", "title": "T"})
    assert resolved.from_identity == "Docs <docs@example.com>"
    assert (resolved.sender_name, resolved.sender_email) == ("Docs", "docs@example.com")


def test_every_recognised_placeholder_is_substituted():
    text = " ".join("{{%s}}" % name for name in PLACEHOLDERS)
    assert apply_placeholders(text, VALUES) == "The Guide All of it Ada ada@example.com"
