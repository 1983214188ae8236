[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "provarchive"
version = "0.1.0"
description = "Build, sign, load and verify provider archives: tar bundles of per-target native libraries with embedded signed claims"
requires-python = ">=3.10"
dependencies = [
    "pynacl",
]
keywords = ["archive", "tar", "jwt", "ed25519", "provider", "plugin", "signing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Packaging",
    "Topic :: Security :: Cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["provarchive"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
