[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ocigen"
version = "0.1.0"
description = "Build and edit OCI container runtime configuration documents, including seccomp profiles"
requires-python = ">=3.10"
dependencies = []
keywords = ["oci", "container", "runtime", "config", "seccomp", "generator"]
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
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ocigen"]

[tool.pytest.ini_options]
addopts = "-ra"
