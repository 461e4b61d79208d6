from setuptools import setup, find_packages

setup(
    name="pairs-trading-backtest",
    version="1.0.0",
    description=(
        "Pairs trading backtester with distance, Johansen cointegration and "
        "Ornstein-Uhlenbeck pair selection, a threshold trading state "
        "machine and buy-and-hold portfolio aggregation"
    ),
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0", "scipy>=1.11.0", "pandas>=2.0.0",
        "statsmodels>=0.15.0",
    ],
    extras_require={
        "test": ["pytest>=7.4.0"],
    },
    keywords=[
        "pairs-trading", "cointegration", "statistical-arbitrage",
        "ornstein-uhlenbeck", "backtesting", "mean-reversion",
    ],
)
