from setuptools import find_namespace_packages, setup


def read_requirements():
    with open("requirements.txt") as f:
        return [line for line in f.read().splitlines() if line and not line.startswith("#")]


setup(
    name="spotify-controls",
    version="1.0.0",
    description="A top bar indicator with the current Spotify track and playback controls",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires=">=3.11",
    install_requires=read_requirements(),
    extras_require={
        "gtk": [
            "PyGObject",
        ],
        "test": [
            "pytest",
        ],
        "dev": [
            "pytest",
            "pygobject-stubs[Gtk4,Gdk]",
        ],
    },
    entry_points={
        "console_scripts": ["spotify-controls=spotify_controls.main:main"],
    },
    packages=find_namespace_packages(include=["spotify_controls", "spotify_controls.*"]),
    include_package_data=True,
)
