# setup.py
from setuptools import setup, find_packages

setup(
    name="PV_IV_Analysis",         # Name of your package
    version="0.1.0",               # Version number
    packages=find_packages(exclude=["tests", "examples"]),
    package_data={"PV_IV_Analysis": ["conditions.yaml"]},
    install_requires=["numpy", "matplotlib", "PyYAML"],
    extras_require={"test": ["pytest"]},
    author="Johnson Wong",
    description="Performance metrics and single diode model parameters extracted from measured solar cell I-V curves",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
    ],
)
