[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kruiserollouts"
version = "0.1.0"
description = "Workload parsing, rollout conditions and rollout-history reconciliation helpers for progressive delivery on Kubernetes-style objects"
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "rollout", "canary", "deployment", "statefulset", "cloneset", "feature-gate"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
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
packages = ["kruiserollouts"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
