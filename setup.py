from setuptools import setup, find_packages
from cd_homelab import __version__

setup(
    name="cd-homelab",
    version=__version__,
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "cd_homelab": ["templates/*.yaml"],
    },
    install_requires=[
        "pyyaml>=6.0",
        "cryptography>=42.0.0",
        "kubernetes>=28.1.0",
        "urllib3>=1.26",
        "python-dotenv>=1.0.0"
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'homelab=cd_homelab.cli:main',
        ],
    },
    python_requires='>=3.11',
)
