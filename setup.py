from setuptools import setup


setup(
    name="boost-aid",
    version="0.1.0",
    description="Gift Aid donation cleanup: column mapping, record repair and HMRC-ready exports",
    packages=["boost_aid"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "boost-aid=boost_aid.cli:main",
        ]
    },
)
