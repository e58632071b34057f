[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kamalproxy"
version = "0.1.0"
description = "Building blocks for a zero-downtime deployment HTTP proxy: middleware, buffering, pause and rollout control, health checks, metrics"
requires-python = ">=3.10"
dependencies = [
    "jinja2",
]
keywords = [
    "proxy",
    "http",
    "deployment",
    "zero-downtime",
    "middleware",
    "rollout",
    "health-check",
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
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Internet :: WWW/HTTP",
]

[project.optional-dependencies]
test = [
    "pytest",
    "cryptography",
]

[project.scripts]
kamal-proxy-upstream = "kamalproxy.upstream:main"

[tool.hatch.build.targets.wheel]
packages = ["kamalproxy"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 120
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
