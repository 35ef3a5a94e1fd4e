from setuptools import setup, find_packages

setup(
    name='modfile',
    version='0.1.0',
    py_modules=['modfile_cli'],
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'lark',
        'pydantic',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'modfile = modfile_cli:main',
        ],
    },
)
