[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "microlink"
version = "0.1.0"
description = "Byte-stream message dispatch, signal/slot wiring and YMODEM file transfer as pollable state machines"
requires-python = ">=3.10"
dependencies = []
keywords = ["ymodem", "crc16", "state machine", "signals", "slots", "serial", "protocol", "dispatch"]
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
    "Topic :: Communications",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["microlink"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
