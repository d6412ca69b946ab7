#!/usr/bin/env python3

# standards
from pathlib import Path
import re

# 3rd parties
import setuptools


def get_version() -> str:
    version_file = Path(__file__).parent / 'relais' / 'version.py'
    version_match = re.search(
        r"RELAIS_VERSION = \'(.+)\'",
        version_file.read_text('UTF-8'),
    )
    if not version_match:
        raise Exception("Couldn't parse version.py")
    return version_match.group(1)


setuptools.setup(
    name='relais',
    version=get_version(),
    description='Configurable asyncio HTTP and server-sent events request builder, with interceptors and pluggable features',
    packages=['relais', 'relais.engines', 'relais.features'],
    package_data={'relais': ['py.typed']},
    python_requires='>=3.9',
    install_requires=[
        'chardet>=4,<6',
        'requests>=2.25,<3',
        'urllib3>=1.26,<3',
    ],
    extras_require={
        'test': [
            'flask>=2,<4',
            'pytest>=7',
            'pytest-asyncio>=0.21',
            'pytest-mock>=3',
        ],
    },
    classifiers=[
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
    ],
    zip_safe=False, # https://mypy.readthedocs.io/en/latest/installed_packages.html#creating-pep-561-compatible-packages
)
