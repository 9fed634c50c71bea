from setuptools import setup, find_packages

setup(
    name="weighbridge",
    version="0.1.0",
    description="Weighbridge weighing state machine and stability engine",
    packages=find_packages(include=["weighbridge", "weighbridge.*"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "pyserial",  # serial weight indicator
    ],
    extras_require={
        "test": ["pytest"],
    },
)
