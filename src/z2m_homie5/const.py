import os

from z2m_homie5 import __version__

__all__ = [
    "ACCESS_SET",
    "ACCESS_STATE",
    "BRIDGE_NAME",
    "CATEGORY_CONFIG",
    "CATEGORY_DIAGNOSTIC",
    "HOMIE_CONVENTION_VERSION",
    "HOMIE_VERSION",
    "NODE_CONFIG",
    "NODE_DIAGNOSTIC",
    "NODE_PRIMARY",
    "QOS_HIGHEST",
    "QOS_LOWEST",
    "YES_ANSWER",
    "Z2M_HOMIE_BRIDGE_ID",
    "Z2M_HOMIE_DEBUG",
    "Z2M_HOMIE_DEVICE_PREFIX",
    "Z2M_HOMIE_LOG_FORMAT",
    "Z2M_HOMIE_LOG_HUMAN_OUTPUT",
    "Z2M_HOMIE_LOG_JSON_FILE",
    "Z2M_HOMIE_LOG_NAME",
    "Z2M_HOMIE_MQTT_CONN_DELAY",
    "Z2M_HOMIE_MQTT_HOST",
    "Z2M_HOMIE_MQTT_PASS",
    "Z2M_HOMIE_MQTT_PORT",
    "Z2M_HOMIE_MQTT_USER",
    "Z2M_HOMIE_TOPIC_PREFIX",
    "Z2M_HOMIE_VERSION",
    "Z2M_HOMIE_Z2M_TOPIC",
    "env_int",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", "on")


def env_int(name: str, default: int) -> int:
    """Integer env value, ``default`` when unset, empty or malformed."""
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


Z2M_HOMIE_LOG_NAME: str = "z2m_homie5"
Z2M_HOMIE_VERSION: str = __version__

# Homie convention: "5.0" goes in $description, "5" is the topic segment.
HOMIE_VERSION: str = "5.0"
HOMIE_CONVENTION_VERSION: str = "5"

# Expose access bits as reported by the Zigbee driver
ACCESS_STATE: int = 0b001
ACCESS_SET: int = 0b010

CATEGORY_CONFIG: str = "config"
CATEGORY_DIAGNOSTIC: str = "diagnostic"
NODE_PRIMARY: str = "primary"
NODE_CONFIG: str = "config"
NODE_DIAGNOSTIC: str = "diagnostic"

QOS_HIGHEST: int = 2
QOS_LOWEST: int = 0

BRIDGE_NAME: str = "Zigbee2MQTT Bridge"

Z2M_HOMIE_MQTT_HOST: str = os.environ.get("Z2M_HOMIE_MQTT_HOST", "localhost")
Z2M_HOMIE_MQTT_USER: str | None = os.environ.get("Z2M_HOMIE_MQTT_USER") or None
Z2M_HOMIE_MQTT_PASS: str | None = os.environ.get("Z2M_HOMIE_MQTT_PASS") or None
Z2M_HOMIE_MQTT_PORT: int = env_int("Z2M_HOMIE_MQTT_PORT", 1883)
Z2M_HOMIE_MQTT_CONN_DELAY: int = env_int("Z2M_HOMIE_MQTT_CONN_DELAY", 10)

Z2M_HOMIE_Z2M_TOPIC: str = os.environ.get("Z2M_HOMIE_Z2M_TOPIC", "zigbee2mqtt")
Z2M_HOMIE_TOPIC_PREFIX: str = os.environ.get("Z2M_HOMIE_TOPIC_PREFIX", "homie")
Z2M_HOMIE_BRIDGE_ID: str = os.environ.get("Z2M_HOMIE_BRIDGE_ID", "zigbee2mqtt-bridge")
Z2M_HOMIE_DEVICE_PREFIX: str = os.environ.get("Z2M_HOMIE_DEVICE_PREFIX", "z2m-")

Z2M_HOMIE_DEBUG: bool = os.environ.get("Z2M_HOMIE_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
Z2M_HOMIE_LOG_FORMAT: str = os.environ.get("Z2M_HOMIE_LOG_FORMAT", "human")  # "json", "human", or "both"
Z2M_HOMIE_LOG_JSON_FILE: str | None = os.environ.get("Z2M_HOMIE_LOG_JSON_FILE") or None
Z2M_HOMIE_LOG_HUMAN_OUTPUT: str = os.environ.get("Z2M_HOMIE_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path
