from setuptools import setup, find_packages

setup(
    name="windows-node-installer",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "boto3",
        "botocore",
        "pydantic>=2",
        "kubernetes",
        "requests",
        "urllib3",
        "typer",
        "cli-core-yo<2",
        "rich",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "windows-node-installer=windows_node_installer.cli:main",
        ],
    },
)
