"""Install the Redis user directory package."""

from setuptools import setup, find_packages

setup(
    name='userdir',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    python_requires='>=3.8',
    install_requires=[
        "flask",
        "python-dateutil",
        "pytz",
        "redis>=4.1",
        "fakeredis>=2.0",
    ],
    extras_require={
        "test": [
            "pytest",
            "hypothesis",
        ]
    },
    zip_safe=False
)
