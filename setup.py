from setuptools import setup, find_packages

setup(
    name="biotune",
    version="0.1",
    packages=find_packages(include=['biotune', 'biotune.*']),
    package_data={
        'biotune': ['config/*.json'],
    },
    install_requires=[
        'numpy',
        'dtaidistance',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': ['biotune=biotune.main:main'],
    },
    python_requires='>=3.8',
)
