from setuptools import setup, find_packages

setup(
    name="notifyqueue",
    version="0.1.0",
    description="A persistent notification delivery queue with retries, stuck job recovery and health checks",
    author="Naufal Reky Ardhana",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=[
        "python-dotenv>=0.15.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "psutil>=5.8.0",
    ],
    extras_require={
        "mysql": ["aiomysql>=0.2.0"],
        "test": ["aiosqlite>=0.17.0"],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'notifyqueue=main:main',
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
