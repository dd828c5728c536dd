"""
Setup script for P2P Chat - Terminal-based direct IPv6 messenger.

Created by orpheus497

This messenger provides:
- Direct point-to-point TCP connections over IPv6 (no servers)
- Compact 24-character join codes for sharing an address and port
- QR codes for join codes, in the terminal or as PNG
- Cross-platform terminal UI (Linux, Windows, macOS, Termux)
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='p2pchat',
    version='1.0.0',
    author='orpheus497',
    description='A terminal-based direct IPv6 peer-to-peer chat with shareable join codes',
    long_description=long_description,
    long_description_content_type='text/markdown',
    url='https://github.com/orpheus497/p2pchat',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Communications :: Chat',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.9',
    install_requires=[
        'textual>=0.47.0',
        'rich>=13.7.0',
        'qrcode[pil]>=7.4',
        'psutil>=5.9.0',
        'tomli>=2.0.1; python_version < "3.11"',
    ],
    extras_require={
        'test': [
            'pytest>=7.4',
            'pytest-asyncio>=0.23',
        ],
    },
    entry_points={
        'console_scripts': [
            'p2pchat=p2pchat.main:main',
        ],
    },
)
