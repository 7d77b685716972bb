[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zdefender"
version = "0.1.3"
description = "DDoS protection toolkit: packet screening, per-IP attack detection, IP blocking, fortress mode and firewall hardening"
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = [
    "ddos",
    "firewall",
    "iptables",
    "intrusion-detection",
    "packet-inspection",
    "syn-flood",
    "network-security",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Networking :: Firewalls",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["zdefender"]

[tool.hatch.build.targets.sdist]
include = [
    "zdefender",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
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
check_untyped_defs = true
