[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dbreplay"
version = "0.1.0"
description = "Building blocks for capturing and replaying MySQL traffic: packet stream reassembly, wire-format helpers, TiDB checkpoint TSO decoding and replay configuration."
requires-python = ">=3.10"
dependencies = [
    "pymysql",
]
keywords = [
    "mysql",
    "tidb",
    "replay",
    "tcp",
    "packet",
    "tso",
    "binlog",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["dbreplay"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
