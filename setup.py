from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="qwen-api",
    version="1.0.0",
    author="Medivh",
    author_email="",
    description="Qwen Chat API Proxy - An OpenAI-compatible Flask proxy for the Qwen chat web API with token rotation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/qwen-api",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.8",
    install_requires=[
        "Flask>=2.0.0",
        "requests>=2.25.0",
        "PyYAML>=5.4.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "qwen-api=qwen_api.main:main",
        ],
    },
)
