[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minikv"
version = "0.1.0"
description = "A small in-memory key-value server with sorted sets, millisecond expiry and a command-line client"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "database", "server", "sorted-set", "avl", "in-memory", "ttl"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
minikv-server = "minikv.server:main"
minikv-client = "minikv.client:main"

[tool.hatch.build.targets.wheel]
packages = ["minikv"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
