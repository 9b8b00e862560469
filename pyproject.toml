[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "routerhosts"
version = "0.1.0"
description = "Serialized write queue and service layer for managing router hosts-file entries"
requires-python = ">=3.11"
dependencies = []
keywords = ["hosts", "dns", "router", "asyncio", "import", "export", "ulid"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Typing :: Typed",
    "Topic :: Internet :: Name Service (DNS)",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["routerhosts"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
