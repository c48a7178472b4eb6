from setuptools import setup, find_packages

setup(
    name="datalab",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.3",
        "pyyaml>=6.0.1",
        "rich>=13.7.0",
        "loguru>=0.7.2",
        "datasketch>=1.6.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "datalab=datalab.cli:main",
        ],
    },
    python_requires=">=3.9",
)
