from setuptools import setup, find_packages

setup(
    name="alncache",
    version="0.1.0",
    description="Sliding-window overlap cache for indexed BAM/CRAM alignments",
    packages=find_packages(include=["alncache", "alncache.*"]),
    entry_points={
        "console_scripts": [
            "alncache=alncache.cli:main",
        ],
    },
    install_requires=[
        "pysam",
        "pyyaml",
        "requests",
        "diskcache",
        "intervaltree",
    ],
    extras_require={
        "parquet": ["pandas", "pyarrow"],
        "test": ["pytest"],
    },
    python_requires=">=3.10",
)
