[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pactkit"
version = "0.1.0"
description = "Contract testing helpers: Pact-style matchers, message and provider-state WSGI middleware, a reverse proxy and port utilities"
requires-python = ">=3.10"
keywords = ["pact", "contract-testing", "consumer-driven-contracts", "matchers", "wsgi", "testing"]
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
    "Topic :: Software Development :: Testing",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pactkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
