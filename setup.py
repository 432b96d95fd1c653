from setuptools import setup, find_packages

setup(
    name="borrowstack",
    version="0.1.0",
    description="borrowstack — borrow-stack aliasing checker for pointer traces",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "borrowstack=borrowstack.cli:main",
        ],
    },
)
