"""
vidscript — setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run:
    vidscript clip.mp4 --policy lenient --format subtitle
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "vidscript"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Upload videos, track AI transcription and export transcripts",
    packages=find_namespace_packages(include=["vidscript", "vidscript.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "vidscript=main:main",
        ],
    },
)
