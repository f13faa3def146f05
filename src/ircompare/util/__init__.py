from collections.abc import Callable
from textwrap import dedent

import numpy as np
import pandas as pd
from joblib import Parallel
from scanpy import logging
from tqdm.auto import tqdm

# reexport tqdm
__all__ = ["tqdm"]


def _doc_params(**kwds):
    """\
    Docstrings should start with "\\" in the first line for proper formatting.
    """

    def dec(obj):
        obj.__orig_doc__ = obj.__doc__
        obj.__doc__ = dedent(obj.__doc__).format_map(kwds)
        return obj

    return dec


def inject_param_docs(**kwargs: str) -> Callable:
    """Inject documentation of parameters shared by many public functions
    into a function docstring.

    Parameters
    ----------
    **kwargs
        Further, custom {keys} to replace in the docstring.
    """
    doc = {}
    doc["repertoires"] = dedent(
        """\
        repertoires
            Sequence of :class:`~ircompare.io.Repertoire` objects, one per sample.
            Sample ids must be unique.
        """
    )
    doc["repertoire"] = dedent(
        """\
        repertoire
            A :class:`~ircompare.io.Repertoire` holding the clonotypes of a single sample.
        """
    )
    doc["sequence"] = dedent(
        """\
        sequence
            Compare clonotypes by their :term:`CDR3` nucleotide (`"nt"`) or amino-acid
            (`"aa"`) sequence.
        """
    )
    doc["n_jobs"] = dedent(
        """\
        n_jobs
            Number of jobs to use for the pairwise distance calculation, passed to
            :class:`joblib.Parallel`. If -1, use all CPUs. Via the
            :class:`joblib.parallel_config` context manager, another backend can be selected.
        """
    )
    return _doc_params(**doc, **kwargs)


def _is_na2(x):
    """Check if a single value is NaN or a string representation of NaN."""
    return pd.isnull(x) or x in ("NaN", "nan", "None", "N/A", "")


def _check_unique_samples(repertoires) -> None:
    """Raise a ValueError if two repertoires share the same sample id."""
    sample_ids = [r.sample_id for r in repertoires]
    duplicated = pd.Index(sample_ids)[pd.Index(sample_ids).duplicated()]
    if len(duplicated):
        raise ValueError(f"Sample ids must be unique. Found duplicates: {', '.join(map(str, duplicated.unique()))}")


def _parallelize_with_joblib(delayed_objects, *, total=None, **kwargs):
    """Wrapper around joblib.Parallel that shows a progressbar if the backend supports it.

    Progressbar solution from https://stackoverflow.com/a/76726101/2340703
    """
    try:
        return tqdm(Parallel(return_as="generator", **kwargs)(delayed_objects), total=total)
    except ValueError:
        logging.info(
            "Backend doesn't support return_as='generator'. No progress bar will be shown. "
            "Consider setting verbosity in joblib.parallel_config"
        )
        return Parallel(return_as="list", **kwargs)(delayed_objects)
