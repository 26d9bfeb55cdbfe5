from surfacelab.entity import SurfaceEntity
from surfacelab.geometry import create_bezier_patch
from surfacelab.group import PatchGroup
from surfacelab.scene import Scene
## unit tests for surfacelab scene.py


class TestScene:

    def test_starts_empty(self):
        scene = Scene()
        assert scene.groups == []
        assert scene.all_surfaces() == []
        assert not scene.log.can_undo
        assert scene.file_path is None

    def test_attach_and_detach(self):
        scene = Scene()
        g1, g2, g3 = PatchGroup(name="a"), PatchGroup(name="b"), PatchGroup(name="c")
        scene.attach_group(g1)
        scene.attach_group(g2)
        scene.attach_group(g1)
        scene.attach_group(g3, 1)
        assert scene.groups == [g1, g3, g2]
        assert scene.detach_group(g3) == 1
        assert scene.detach_group(g3) is None
        assert scene.groups == [g1, g2]

    def test_queries(self):
        scene = Scene()
        g1 = scene.add_group()
        g2 = scene.add_group()
        a = SurfaceEntity(create_bezier_patch())
        b = SurfaceEntity(create_bezier_patch())
        g1.add_surface(a)
        g2.add_surface(b)
        assert scene.find_group(b) is g2
        assert scene.find_group(SurfaceEntity(create_bezier_patch())) is None
        assert scene.all_surfaces() == [a, b]
