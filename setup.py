import setuptools

with open("nool/.version") as f:
    version = f.read().strip()

setuptools.setup(
    name="nool",
    version=version,
    python_requires=">=3.11.0",
    entry_points={"console_scripts": ["nool = nool.__main__:main"]},
    packages=["nool"],
    package_data={"nool": [".version", "py.typed"]},
    install_requires=[
        "aiofiles",
        "appdirs",
        "click",
        "jinja2",
        "send2trash",
        "tomli-w",
    ],
    extras_require={"test": ["pytest"]},
)
