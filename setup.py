from setuptools import setup, find_packages
from pathlib import Path

this_dir = Path(__file__).parent

readme = (this_dir / "README.md").read_text(encoding="utf-8")

setup(
    name="balcost",
    version="0.1.0",
    description="Balanced target cost for training feed-forward networks on imbalanced data",
    long_description=readme,
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "torch>=2.0",
        "numpy",
        "scikit-learn",
        "tqdm",
    ],
    extras_require={
        "demo": [
            "matplotlib",
            "seaborn",
            "pandas",
        ],
        "test": [
            "pytest",
        ],
    },
)
