from setuptools import setup, find_namespace_packages

setup(
    name="recurring-transactions-backend",
    version="0.1.0",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "numpy>=1.24.0",
        "typing_extensions>=4.5.0",
    ],  # boto3 is provided by Lambda
    extras_require={
        "local": [
            "boto3>=1.26.0",
            "botocore>=1.29.0",
        ],
        "dev": [
            "boto3>=1.26.0",
            "botocore>=1.29.0",
            "mypy>=1.0.0",
            "types-boto3>=1.0.0",
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "flake8>=6.0.0"
        ]
    }
)
