[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pylon"
version = "0.1.0"
description = "SQLite-backed job store, concurrency limiter, webhook signature checks and tool-event tracking for coding-agent jobs"
requires-python = ">=3.10"
dependencies = []
keywords = ["agents", "webhooks", "jobs", "sqlite", "hmac", "job-store"]
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
    "Topic :: Software Development :: Build Tools",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pylon"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
