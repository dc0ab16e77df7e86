import h5py
import numpy as np
import pytest

from photonlib.geometry.channels import Region
from photonlib.io.records import RECORD_FIELDS, RECORD_TREE, VisRecord, sipm_field, tile_field
from photonlib.io.vis_store import (
    VisTreeWriter,
    append_row,
    clone_tree,
    create_tree,
    n_entries,
    read_entry,
    read_records,
    tree_fields,
    write_init,
)


# --- Helpers -----------------------------------------------------------------

def _record(x, value):
    rec = VisRecord(x=x, y=-1.5, z=2.25, vis_tot=value, vis_dir=value / 2, vis_wls=value / 4, n_events=1)
    rec.regions[Region.MAIN].sipm[5123] = value
    rec.regions[Region.MAIN].tile_tot[32] = value
    rec.regions[Region.EDGE1].tile_wls[9] = value / 4
    return rec


# --- Tests -------------------------------------------------------------------

def test_vis_tree_write_read(tmp_path):
    out = tmp_path / "sub" / "lib_ntuple.h5"
    with VisTreeWriter(out, input_path="in.h5") as w:
        w.fill(_record(0.5, 0.25))
        w.fill(_record(1.0, 0.125))
        assert w.n_written == 2

    with h5py.File(out, "r") as f:
        grp = f[RECORD_TREE]
        assert grp.attrs["title"] == "SoLAr@ProtoDUNE3 Photon Library"
        assert int(grp.attrs["entries"]) == 2
        assert f.attrs["input_path"] == "in.h5"
        assert tree_fields(grp) == [fs.name for fs in RECORD_FIELDS]
        assert grp["vis_sipm_main"].shape == (2, 9600)
        assert grp["vis_tot_tile_edge0"].shape == (2, 10)
        assert grp["x"].dtype == np.float32

    recs = read_records(out)
    assert [r.x for r in recs] == [0.5, 1.0]
    assert recs[0].y == -1.5 and recs[0].z == 2.25
    assert recs[0].vis_tot == pytest.approx(0.25)
    assert recs[1].vis_dir == pytest.approx(0.0625)
    assert recs[0].regions[Region.MAIN].sipm[5123] == pytest.approx(0.25)
    assert recs[0].regions[Region.MAIN].tile_tot[32] == pytest.approx(0.25)
    assert recs[1].regions[Region.EDGE1].tile_wls[9] == pytest.approx(0.03125)
    assert recs[1].regions[Region.MAIN].sipm.sum() == pytest.approx(0.125)


def test_field_names_are_stable():
    names = [fs.name for fs in RECORD_FIELDS]
    assert names[:6] == ["x", "y", "z", "vis_tot", "vis_dir", "vis_wls"]
    assert tile_field("dir", Region.EDGE0) in names
    assert sipm_field(Region.EDGE1) == "vis_sipm_edge1"
    assert len(names) == 6 + 9 + 3


def test_clone_tree_copies_schema_only(tmp_path):
    src_path = tmp_path / "shard_vtree.h5"
    with VisTreeWriter(src_path) as w:
        w.fill(_record(0.0, 1.0))

    with h5py.File(src_path, "r") as src_f:
        f = write_init(tmp_path / "joined.h5")
        grp = clone_tree(src_f[RECORD_TREE], f, RECORD_TREE)
        assert n_entries(grp) == 0
        assert tree_fields(grp) == tree_fields(src_f[RECORD_TREE])
        assert grp["vis_sipm_main"].shape == (0, 9600)
        assert "entries" not in grp.attrs

        append_row(grp, read_entry(src_f[RECORD_TREE], 0))
        assert n_entries(grp) == 1
        f.close()


def test_read_entry_out_of_range(tmp_path):
    p = tmp_path / "one.h5"
    with VisTreeWriter(p) as w:
        w.fill(_record(0.0, 1.0))
    with h5py.File(p, "r") as f:
        with pytest.raises(IndexError):
            read_entry(f[RECORD_TREE], 1)
        with pytest.raises(IndexError):
            read_entry(f[RECORD_TREE], -1)


def test_append_row_rejects_missing_fields(tmp_path):
    f = write_init(tmp_path / "bad.h5")
    grp = create_tree(f)
    row = _record(0.0, 1.0).as_row()
    del row["vis_sipm_edge0"]
    with pytest.raises(KeyError):
        append_row(grp, row)
    assert n_entries(grp) == 0
    f.close()


def test_append_row_rejects_wrong_shape_without_partial_row(tmp_path):
    f = write_init(tmp_path / "shape.h5")
    grp = create_tree(f)
    append_row(grp, _record(0.0, 1.0).as_row())

    row = _record(1.0, 1.0).as_row()
    row["vis_sipm_edge1"] = np.zeros(599, dtype=np.float32)
    with pytest.raises(ValueError):
        append_row(grp, row)

    assert all(grp[name].shape[0] == 1 for name in tree_fields(grp))
    f.close()
