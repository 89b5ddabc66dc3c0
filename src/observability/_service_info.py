import os


def get_service_commit() -> str:
    return os.getenv("GIT_COMMIT", "---")


def get_service_name() -> str:
    return "beaconwatch"


def get_service_version() -> str:
    return os.getenv("BEACONWATCH_VERSION", "v0.0.0-dev")
