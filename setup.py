from setuptools import setup, find_packages
import re

# Read version from payaudit/__init__.py
with open('payaudit/__init__.py') as f:
    version = re.search(r'^__version__ = ["\']([^"\']+)["\']', f.read(), re.MULTILINE).group(1)

setup(
    name='pay-audit',
    version=version,
    packages=find_packages(include=['payaudit', 'payaudit.*']),
    package_data={
        'payaudit': ['data/*.yaml', 'data/tax-rules/*.yaml'],
    },
    install_requires=[
        'PyYAML>=6.0',
        'click>=8.0',
        'pydantic>=2.0.0',
        'rich>=13.0',
    ],
    extras_require={
        'mcp': [
            'mcp[cli]>=1.0.0,<2',
        ],
        'test': [
            'pytest>=7.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'pay-audit=payaudit.cli.__main__:main',
            'pay-audit-mcp=payaudit.mcp.server:run_server',
        ],
    },
    author='Personal',
    description='Military pay statement (LES) audit engine.',
    python_requires='>=3.10',
)
