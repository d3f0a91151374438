from setuptools import find_packages, setup

requirements = [
    "attrs",
    "cattrs",
    "fsspec",
    "numpy",
    "numcodecs",
]

setup(
    name="zarrkv",
    version="0.1.0",
    description=(
        "Zarr version 2 chunked arrays and groups "
        "on top of a plain key/value store"
    ),
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={"test": ["pytest", "pytest-asyncio", "zarr"]},
)
