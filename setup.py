from pathlib import Path

from setuptools import setup

install_requires = [
    "trio>=0.23.0",
    "asks>=3.0.0",
    "h11>=0.14.0",
    "PyYAML>=6.0",
]


setup(
    name='nxpresence',
    use_scm_version={
        "version_scheme": "guess-next-dev",
        "local_scheme": "dirty-tag",
        "fallback_version": "0.1.0",
    },
    packages=['nxpresence', 'nxpresence.core', 'nxpresence.dataclasses',
              'nxpresence.ipc', 'nxpresence.titles'],
    license='LGPLv3',
    description='Shows the title running on a Nintendo Switch as Discord Rich Presence',
    long_description=Path(__file__).with_name("README.rst").read_text(encoding="utf-8"),
    python_requires=">=3.8",
    setup_requires=[
        "setuptools_scm",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Framework :: Trio",
        "Development Status :: 4 - Beta"
    ],
    install_requires=install_requires,
    extras_require={
        "tests": [
            "pytest",
            "pytest-trio",
        ],
    },
    entry_points={
        "console_scripts": [
            "nxpresence = nxpresence.cli:main",
        ],
    },
)
