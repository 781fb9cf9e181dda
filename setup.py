from setuptools import setup, find_packages

setup(
    name="quant-risk-engine",
    version="0.1.0",
    description="Quant Risk Engine - Kelly sizing, portfolio optimization, risk parity, Monte Carlo and tail-risk analysis",
    author="Quant Risk",
    packages=find_packages(include=["quantrisk", "quantrisk.*"]),
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "python-dotenv",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "quantrisk=quantrisk.cli:cli_entry",
        ],
    },
    python_requires=">=3.8",
)
