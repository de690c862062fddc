from setuptools import setup, find_packages

setup(
    name="portfolio-engine",
    version="1.0.0",
    author="Portfolio Engine Team",
    description="Portfolio simulation, rebalancing and trading-pattern engine",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "portfolio_engine": ["py.typed"],
        "engine_config": ["py.typed"],
    },
    install_requires=[
        "pydantic==2.11.7",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    python_requires=">=3.11",
)
