import os
from setuptools import setup, find_packages

# Find all packages in the current directory
packages = find_packages(include=['teradatapyapi', 'teradatapyapi.*'])

readme_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'README.md')

setup(
    name='teradatapyapi',
    version='1.0.0',
    description='Python binding layer for the Teradata SQL native driver',
    long_description=open(readme_path, encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    packages=packages,
    # Requires >= Python 3.10
    python_requires='>=3.10',
    install_requires=[
        'typer',
        'rich',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'teradatapyapi=teradatapyapi.cli:app',
        ],
    },
    classifiers=[
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS',
        'Operating System :: POSIX :: Linux',
    ],
    zip_safe=False,
)
