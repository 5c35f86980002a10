from leadmagnet_service.config_loader import load_settings
from leadmagnet_service.server import run_server


if __name__ == "__main__":
    run_server(load_settings())
