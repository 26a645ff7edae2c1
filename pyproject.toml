[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "headscale"
version = "0.1.0"
description = "Building blocks for a mesh VPN coordination server: MagicDNS roots, DERP maps, STUN replies, a key-value store and command output helpers"
requires-python = ">=3.10"
keywords = ["vpn", "derp", "stun", "magicdns", "coordination-server"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["headscale"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
