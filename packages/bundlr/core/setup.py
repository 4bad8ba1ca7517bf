from setuptools import find_packages, setup

# Physical layout under packages/ matches the bundlr.core import path
packages = find_packages(where="../..", include=["bundlr.core", "bundlr.core.*"])

setup(
    packages=packages,
    package_dir={"": "../.."},
)
