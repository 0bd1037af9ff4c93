[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "presencenode"
version = "0.1.0"
description = "Room presence node logic: MQTT discovery, status LEDs, motion debouncing, firmware updates and sensor reporting"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "presence",
    "home-automation",
    "mqtt",
    "home-assistant",
    "ble",
    "sensors",
    "ota",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["presencenode"]

[tool.hatch.build.targets.sdist]
include = ["presencenode", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
