"""Room presence node logic: MQTT discovery, LEDs, motion, firmware updates, sensors and the web UI state."""

__version__ = "0.1.0"

__all__ = [
    "defaults",
    "mqtt",
    "led",
    "leds",
    "motion",
    "release_update",
    "updater",
    "gui",
    "sensors",
    "webserver",
    "node",
]