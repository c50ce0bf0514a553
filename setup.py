import re

import setuptools

with open("pyenvoy/__init__.py", "r") as fh:
    version_tuple = re.search(r"^version_tuple = \((\d+), (\d+), (\d+)\)", fh.read(), re.M).groups()

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="pyenvoy",
    version='.'.join(version_tuple),
    author="pyenvoy",
    description="Python module and Prometheus exporter for Enphase IQ Gateway (Envoy) solar data",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(),
    python_requires='>=3.9',
    install_requires=[
        'requests',
        'urllib3',
        'python-dotenv',
        'pydantic>=2.0',
        'pydantic-settings>=2.0',
        'prometheus_client>=0.14',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'pyenvoy=pyenvoy.__main__:main',
            'enphase-exporter=pyenvoy.exporter.server:main',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
