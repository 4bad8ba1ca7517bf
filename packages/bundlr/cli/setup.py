from setuptools import find_packages, setup

# Physical layout under packages/ matches the bundlr.cli import path
packages = find_packages(where="../..", include=["bundlr.cli", "bundlr.cli.*"])

setup(
    packages=packages,
    package_dir={"": "../.."},
)
