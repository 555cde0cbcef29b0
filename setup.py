#!/usr/bin/env python3
"""
Setup script for the Streaming Voice Assistant package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="streaming-voice-assistant",
    version="1.0.0",
    description="Record a question, transcribe it and stream the LLM answer back as it is generated",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "sounddevice",
        "ollama",
        "pydantic>=2.0.0",
        "httpx",
        "fastapi",
        "uvicorn",
        "python-multipart",
        "slowapi",
    ],
    extras_require={
        "whisper": [
            "openai-whisper",
        ],
        "test": [
            "pytest",
        ],
        "all": [
            "openai-whisper",
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "streaming-voice-assistant=streaming_voice_assistant.cli:main",
            "streaming-voice-assistant-server=streaming_voice_assistant.server:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
