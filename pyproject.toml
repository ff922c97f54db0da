[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rpcmesh"
version = "0.1.0"
description = "Client-side building blocks for RPC service governance: server selection, circuit breaking, consistent hashing, plugins and service discovery."
requires-python = ">=3.10"
dependencies = []
keywords = ["rpc", "service-discovery", "load-balancing", "circuit-breaker", "consistent-hashing"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rpcmesh"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
