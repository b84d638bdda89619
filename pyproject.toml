[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "workloadkit"
version = "0.1.0"
description = "Helpers for Kubernetes workload manifests: kinds, report labels, spec hashing, owner resolution and security report metrics."
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "workloads", "labels", "hashing", "metrics", "prometheus", "security-reports"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["workloadkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
