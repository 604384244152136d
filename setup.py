from setuptools import setup, find_packages

setup(
    name="thoughty-capture",
    version="0.1.0",
    python_requires=">=3.11",
    packages=find_packages(include=["thoughty", "capture", "capture.*", "capture_api"]),
    install_requires=[
        "typer>=0.9.0",
        "sounddevice>=0.4.6",
        "fastapi>=0.110.0",
        "uvicorn>=0.29.0",
        "pydantic>=2.6.3",
        "faster-whisper>=1.0.2",
        "requests>=2.31.0",
        "python-dotenv>=1.0.0",
        "numpy>=1.24.3",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.3.4",
            "httpx>=0.27.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'thoughty=thoughty.cli:run',
        ],
    },
)
