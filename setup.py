from setuptools import setup, find_packages
import re

# Read version from gmcli/__init__.py
with open('gmcli/__init__.py') as f:
    version = re.search(r'^__version__ = ["\']([^"\']+)["\']', f.read(), re.MULTILINE).group(1)

setup(
    name='gmcli',
    version=version,
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.8',
    install_requires=[
        'google-api-python-client',
        'google-auth',
        'httplib2',
        'requests',
        'python-dotenv',
        'click>=8.0',
        'PyYAML',
        'click_option_group',
        'Markdown',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'gmcli=gmcli.cli.__main__:main',
        ],
    },
    author='CLI Developer',
    description='gmcli - command-line Gmail client with OAuth2 PKCE login, markdown mail and labels.',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
)
