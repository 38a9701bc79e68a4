try:
    # Loading the numeric stack up front gives a clearer message than a failure deep
    # inside a feature function.
    import numpy, torch  # noqa

except ModuleNotFoundError:
    print(
        "Using smtdecoder requires the python packages Numpy and Pytorch "
        "to be installed. Please see the README for installation instructions."
    )
    raise

from smtdecoder.version import VERSION as __version__  # noqa
