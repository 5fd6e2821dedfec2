[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "subp2p"
version = "0.1.0"
description = "Building blocks for Substrate peer-to-peer networks: notification protocols, handshakes, peer tracking and SS58 addresses"
requires-python = ">=3.10"
dependencies = []
keywords = ["substrate", "p2p", "kademlia", "notifications", "handshake", "ss58", "polkadot"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["subp2p"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
