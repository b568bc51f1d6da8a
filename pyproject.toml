[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "etcdmembership"
version = "0.1.0"
description = "Scaling-safety checks and membership reconciliation for etcd clusters on a control plane"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "etcd",
    "cluster",
    "quorum",
    "membership",
    "control-plane",
    "learner",
]
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
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["etcdmembership"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
