import setuptools

with open("README.md") as f:
    long_description = f.read()

setuptools.setup(
    name="lanshare",
    version="1.0.0",
    description="Authenticated single-directory file sharing over a LAN",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_namespace_packages(include=["lanshare", "lanshare.*"]),
    python_requires=">=3.8",
    install_requires=[
        "aiofiles"
    ],
    extras_require={
        "test": [
            "pytest"
        ]
    },
    entry_points = {
        "console_scripts": [
            'lanshare-serve=lanshare.server.serve:serve',
            'lanshare-hash=lanshare.server.serve:hash_main',
            'lanshare-fetch=lanshare.client.connect:connect'
        ]
    },
    include_package_data=True,
    scripts=[
    ]
)
