"""smime-exec setup."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="smime-exec",
    version="0.1.0",
    packages=find_packages(include=["smime_exec", "smime_exec.*"]),
    install_requires=[
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "cryptography>=41.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "smime-exec=smime_exec.__main__:main",
        ],
    },
    python_requires=">=3.10",
    author="smime-exec",
    author_email="",
    description="S/MIME decrypt, sign, encrypt and verify by driving an external CMS tool",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
        "Topic :: Communications :: Email",
    ],
    keywords="smime, cms, pkcs7, nss, cmsutil, subprocess",
)
