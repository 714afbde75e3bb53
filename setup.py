"""
Setup configuration for GeoNames Firestore Loader
"""
from setuptools import setup, find_packages
from pathlib import Path

# Read README
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="geonames-firestore-loader",
    version="0.1.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Turn GeoNames city dumps into a JSON array and load it into Firestore, resumably",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/geonames-firestore-loader",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: GIS",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.8",
    install_requires=[
        "firebase-admin>=6.0",
        "python-dotenv>=1.0",
        "requests>=2.28",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "geonames-firestore=cityloader.cli:main",
        ],
    },
    include_package_data=True,
    package_data={
        "cityloader": ["py.typed"],
    },
    keywords=[
        "geonames",
        "cities",
        "firestore",
        "firebase",
        "etl",
        "json",
        "streaming",
        "gazetteer",
    ],
    project_urls={
        "Bug Reports": "https://github.com/yourusername/geonames-firestore-loader/issues",
        "Source": "https://github.com/yourusername/geonames-firestore-loader",
    },
)
