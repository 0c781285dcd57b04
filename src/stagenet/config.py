import os


class StageNetConfig:

    def __init__(self):
        self.enable_logging: bool = False
        self.logs_dir: str = "./logs"
        self.log_level: str = "WARNING"
        self.num_display_layers = 20


def load_config_from_env(cfg: "StageNetConfig" = None) -> "StageNetConfig":
    """
    Populate a config object from STAGENET_* environment variables.
    Unset variables keep the current value.
    """
    cfg = cfg if cfg is not None else StageNetConfig()
    env = os.environ

    if "STAGENET_ENABLE_LOGGING" in env:
        cfg.enable_logging = env["STAGENET_ENABLE_LOGGING"] == "1"
    if "STAGENET_LOGS_DIR" in env:
        cfg.logs_dir = env["STAGENET_LOGS_DIR"]
    if "STAGENET_LOG_LEVEL" in env:
        cfg.log_level = env["STAGENET_LOG_LEVEL"].upper()
    if "STAGENET_NUM_DISPLAY_LAYERS" in env:
        cfg.num_display_layers = int(env["STAGENET_NUM_DISPLAY_LAYERS"])
    return cfg


config = load_config_from_env()
