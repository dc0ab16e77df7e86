"""
HDF5 storage for photon-library trees.

A tree is an HDF5 group holding one dataset per record field, all sharing
the entry axis (axis 0, resizable). Entry i of the tree is row i of every
dataset; the field order is kept in the group attribute "fields".

Layout (default tree name "photonLib"):

/photonLib/x                  (N,)      float32
/photonLib/vis_tot            (N,)      float32
/photonLib/vis_tot_tile_main  (N, 60)   float32
/photonLib/vis_sipm_main      (N, 9600) float32
...
"""
from __future__ import annotations
from typing import Any, Dict, Iterator, List, Mapping, Sequence
import h5py
import numpy as np
from datetime import datetime, timezone
from pathlib import Path

from photonlib.io.records import (
    FieldSpec,
    RECORD_DTYPE,
    RECORD_FIELDS,
    RECORD_TITLE,
    RECORD_TREE,
    VisRecord,
)

FORMAT_VERSION = "1.0"
SOFTWARE = "photonlib 0.1.0"


def write_init(path: str | Path, *, config_text: str | None = None, **attrs: Any) -> h5py.File:
    """Create (truncate) an output file and stamp the root attributes."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    f = h5py.File(p, "w")
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = SOFTWARE
    if config_text is not None:
        f.attrs["config_text"] = config_text
    for k, v in attrs.items():
        f.attrs[k] = v
    return f


def _create_field(grp: h5py.Group, name: str, shape: Sequence[int], dtype) -> h5py.Dataset:
    shape = tuple(int(s) for s in shape)
    return grp.create_dataset(
        name,
        shape=(0,) + shape,
        maxshape=(None,) + shape,
        chunks=(1,) + shape if shape else (1024,),
        dtype=dtype,
        compression="gzip",
    )


def create_tree(
    f: h5py.File,
    name: str = RECORD_TREE,
    fields: Sequence[FieldSpec] = RECORD_FIELDS,
    *,
    title: str = RECORD_TITLE,
    dtype=RECORD_DTYPE,
) -> h5py.Group:
    if name in f:
        del f[name]
    grp = f.create_group(name)
    grp.attrs["title"] = title
    grp.attrs["fields"] = np.array([fs.name for fs in fields], dtype=h5py.string_dtype())
    for fs in fields:
        _create_field(grp, fs.name, fs.shape, dtype)
    return grp


def tree_fields(grp: h5py.Group) -> List[str]:
    """Field names of a tree, in their declared order."""
    if "fields" in grp.attrs:
        return [n.decode() if isinstance(n, bytes) else str(n) for n in grp.attrs["fields"]]
    return [k for k, v in grp.items() if isinstance(v, h5py.Dataset)]


def clone_tree(src: h5py.Group, f: h5py.File, name: str | None = None) -> h5py.Group:
    """Create an empty tree in `f` with the same fields, shapes and dtypes as `src`."""
    name = name or src.name.rsplit("/", 1)[-1]
    if name in f:
        del f[name]
    names = tree_fields(src)
    grp = f.create_group(name)
    grp.attrs["title"] = src.attrs.get("title", RECORD_TITLE)
    grp.attrs["fields"] = np.array(names, dtype=h5py.string_dtype())
    for field_name in names:
        ds = src[field_name]
        _create_field(grp, field_name, ds.shape[1:], ds.dtype)
    return grp


def n_entries(grp: h5py.Group) -> int:
    names = tree_fields(grp)
    if not names:
        return 0
    return int(grp[names[0]].shape[0])


def append_row(grp: h5py.Group, row: Mapping[str, Any]) -> int:
    """Append one entry to every field of the tree; returns the new entry index."""
    names = tree_fields(grp)
    missing = [n for n in names if n not in row]
    if missing:
        raise KeyError(f"Row is missing fields of tree {grp.name}: {missing}")
    values = {}
    for n in names:
        v = np.asarray(row[n])
        expected = grp[n].shape[1:]
        if v.shape != expected:
            raise ValueError(
                f"Field {n} of tree {grp.name} expects shape {expected}, got {v.shape}"
            )
        values[n] = v

    i = n_entries(grp)
    try:
        for n in names:
            ds = grp[n]
            ds.resize(i + 1, axis=0)
            ds[i] = values[n]
    except (TypeError, ValueError):
        # roll back fields already grown so every field keeps i entries
        for n in names:
            if grp[n].shape[0] > i:
                grp[n].resize(i, axis=0)
        raise
    return i


def read_entry(grp: h5py.Group, entry: int) -> Dict[str, np.ndarray]:
    n = n_entries(grp)
    if entry < 0 or entry >= n:
        raise IndexError(f"Entry {entry} out of range for tree {grp.name} with {n} entries")
    return {name: np.asarray(grp[name][entry]) for name in tree_fields(grp)}


def iter_records(path: str | Path, tree: str = RECORD_TREE) -> Iterator[VisRecord]:
    with h5py.File(str(path), "r") as f:
        if tree not in f:
            raise KeyError(f"{tree} not found in {path}")
        grp = f[tree]
        for i in range(n_entries(grp)):
            yield VisRecord.from_row(read_entry(grp, i))


def read_records(path: str | Path, tree: str = RECORD_TREE) -> List[VisRecord]:
    return list(iter_records(path, tree))


class VisTreeWriter:
    """
    Write VisRecords into the photon-library tree of a new HDF5 file.

    with VisTreeWriter(out_path) as w:
        for rec in records:
            w.fill(rec)
    """

    def __init__(self, path: str | Path, *, tree: str = RECORD_TREE,
                 config_text: str | None = None, **attrs: Any) -> None:
        self.path = Path(path)
        self._f = write_init(self.path, config_text=config_text, **attrs)
        self._grp = create_tree(self._f, tree)
        self.n_written = 0

    def fill(self, record: VisRecord) -> int:
        i = append_row(self._grp, record.as_row())
        self.n_written += 1
        return i

    def close(self) -> None:
        if self._f is not None:
            self._grp.attrs["entries"] = self.n_written
            self._f.close()
            self._f = None

    def __enter__(self) -> "VisTreeWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
