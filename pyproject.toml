[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flowemu"
version = "0.1.0"
description = "Chain-state storage for a local blockchain emulator: blocks, collections, transactions, results, events and versioned ledger registers in memory, SQLite or Redis."
requires-python = ">=3.10"
keywords = ["blockchain", "emulator", "storage", "sqlite", "redis", "cbor", "ledger"]
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
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "cbor2",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["flowemu"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
