[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simdisk"
version = "0.7.0"
description = "Simulated per-host filesystem with crash and durability modelling for deterministic testing"
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "testing", "filesystem", "durability", "crash-consistency", "deterministic"]
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
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["simdisk"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
