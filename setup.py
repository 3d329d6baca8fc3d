from setuptools import setup, find_packages

setup(
    name="may-highs",
    version="0.1.0",
    description="Historical May high temperatures for a metropolitan region",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31",
        "urllib3>=2.0",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "numpy>=1.24",
        "pandas>=2.0,<3",
        "geopandas>=0.14",
        "shapely>=2.0",
        "matplotlib>=3.7",
        "plotly>=5.15",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
)
