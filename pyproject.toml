[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ucxsim"
version = "0.1.0"
description = "A simulated preemptive/cooperative task kernel with a least-slack-time-first real-time scheduler"
requires-python = ">=3.10"
dependencies = []
keywords = ["rtos", "scheduler", "simulation", "lstf", "least-slack-time", "kernel", "round-robin"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ucxsim = "ucxsim.rtsched:main"

[tool.hatch.build.targets.wheel]
packages = ["ucxsim"]

[tool.pytest.ini_options]
addopts = "-ra"
