"""Setup script for the stormcrow USB passthrough daemon."""

from setuptools import setup, find_packages


requires = [
    "blinker>=1.4",
    "click>=6.2",
    "colorlog>=4.0.0",
    "jsonschema>=3.0.1",
    "libvirt-python>=6.0.0",
    "python-dotenv>=0.10.3",
    "pyudev>=0.22.0",
    "trio>=0.23.0",
]

__version__ = None
exec(open("src/stormcrow/version.py").read())

setup(
    name="stormcrow",
    version=__version__,
    packages=find_packages("src"),
    package_dir={"": "src"},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=requires,
    extras_require={"test": ["pytest>=7.0", "pytest-trio>=0.8.0"]},
    setup_requires=[],
    entry_points={
        "console_scripts": [
            "stormcrowd = stormcrow.launcher:start",
            "stormcrowctl = stormcrow.client:cli",
        ]
    },
)
