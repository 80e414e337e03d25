"""Setup configuration for pyRRBLUP package"""

from setuptools import setup, find_packages

setup(
    name="pyrrblup",
    version="0.1.0",
    author="pyRRBLUP Development Team",
    description="Genomic prediction by ridge-regression BLUP with REML variance components and cross-validation",
    long_description=open("README.md").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["rrblup", "rrblup.*"]),
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.6.0",
        "pandas>=1.2.0",
        "joblib>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=6.0",
        ],
    },
    python_requires=">=3.7",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.7",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)
