[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "limaconf"
version = "0.1.0"
description = "Load, merge and fill in defaults for virtual machine instance configurations"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "virtual-machine",
    "qemu",
    "configuration",
    "yaml",
    "port-forwarding",
    "dns",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: MacOS",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["limaconf"]

[tool.hatch.build.targets.sdist]
include = [
    "limaconf",
    "tests",
    "README.md",
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
