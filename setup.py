from setuptools import setup, find_packages

setup(
    name="network-inventory",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "aiohttp>=3.9.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "winrm": [
            "pywinrm>=0.4.3",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "network-inventory=network_inventory.scanner_service:main",
        ],
    },
    python_requires=">=3.11",
)
