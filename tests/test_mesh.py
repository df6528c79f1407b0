"""Unittests for the mesh and geometry modules."""

import numpy as np
import open3d as o3d
import pytest

from .context import mesh, geometry, utils


@pytest.fixture
def triangle():
    return mesh.Mesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0]], faces=[[0, 1, 2]])


@pytest.fixture
def quad():
    return mesh.Mesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]],
                     faces=[[0, 1, 2], [2, 1, 3]],
                     colors=[[255, 0, 0], [0, 255, 0], [0, 0, 255], [255, 255, 255]],
                     normals=[[0, 0, 1]] * 4)


@pytest.fixture
def surfel():
    return geometry.Surfel(location=[1.0, 2.0, 3.0], normal=[0.0, 0.0, 1.0], color=[10, 20, 30], radius=0.5)


class TestGeometry:

    def test_plane_from_point_and_normal(self):
        plane = geometry.Plane.from_point_and_normal(point=[0, 0, 1], normal=[0, 0, 2])
        assert np.allclose(plane.normal, [0, 0, 1])
        assert np.isclose(plane.distance_to_plane([0, 0, 3]), 2.0)
        assert np.isclose(plane.distance_to_plane([5, -4, 0]), -1.0)

    def test_plane_intersection_with_line(self):
        plane = geometry.Plane(a=0, b=1, c=0, d=-2)
        assert np.allclose(plane.intersection_with_line([1, 0, 1], [1, 1, 1]), [1, 2, 1])
        assert np.all(np.isnan(plane.intersection_with_line([0, 0, 0], [1, 0, 0])))

    def test_box(self):
        box = geometry.Box(x=1, y=2, z=3, width=2, height=4, depth=6)
        assert np.allclose(box.center, [2, 4, 6])
        assert np.allclose(box.sizes, [2, 4, 6])

    def test_surfel(self, surfel):
        assert surfel.color.dtype == np.uint8
        assert surfel.radius == 0.5

    @pytest.mark.parametrize("normal", [[0, 0, 1], [1, 0, 0], [0.3, -0.5, 0.8]])
    def test_orthogonal_basis(self, normal):
        v1, v2 = geometry.orthogonal_basis(normal)
        n = np.asarray(normal) / np.linalg.norm(normal)
        assert np.isclose(np.linalg.norm(v1), 1.0)
        assert np.isclose(np.linalg.norm(v2), 1.0)
        assert np.isclose(v1 @ v2, 0.0)
        assert np.isclose(v1 @ n, 0.0)
        assert np.allclose(np.cross(v1, v2), n)


class TestMesh:

    def test_constructor(self, quad):
        assert quad.num_vertices == 4
        assert quad.num_faces == 2
        assert quad.colors.dtype == np.uint8
        assert quad.faces.dtype == np.int64
        assert quad.has_colors() and quad.has_normals()
        assert not quad.has_texcoords() and not quad.has_face_texcoords() and not quad.has_texture()

    def test_constructor_with_mismatching_attributes(self):
        with pytest.raises(ValueError):
            mesh.Mesh(vertices=np.zeros((3, 3)), colors=np.zeros((2, 3)))
        with pytest.raises(ValueError):
            mesh.Mesh(vertices=np.zeros((3, 3)), faces=[[0, 1, 2]], face_texcoords=np.zeros((2, 3, 2)))

    @pytest.mark.parametrize("faces", [[[0, 1, 3]], [[0, -1, 2]]])
    def test_constructor_with_invalid_face_indices(self, faces):
        with pytest.raises(ValueError):
            mesh.Mesh(vertices=np.zeros((3, 3)), faces=faces)

    def test_empty(self):
        empty = mesh.Mesh()
        assert empty.num_vertices == 0
        assert np.all(empty.center() == 0)

    def test_clear(self, quad):
        quad.clear()
        assert quad.num_vertices == 0
        assert quad.num_faces == 0
        assert not quad.has_colors()

    def test_centerize(self, triangle):
        center = triangle.centerize()
        assert np.allclose(center, [1 / 3, 1 / 3, 0])
        assert np.allclose(triangle.center(), 0)

    def test_apply_transform(self, quad):
        T = utils.get_transformation_matrix_from_xyz(rotation_xyz=[0, 90, 0], translation_xyz=[1, 2, 3])
        vertices = quad.vertices.copy()
        quad.apply_transform(T)
        assert np.allclose(quad.vertices, vertices @ T[:3, :3].T + T[:3, 3])
        assert np.allclose(quad.normals, [[1, 0, 0]] * 4)

        quad.apply_transform([1, 1, 1])
        assert np.allclose(quad.vertices, vertices @ T[:3, :3].T + T[:3, 3] + 1)
        assert np.allclose(quad.normals, [[1, 0, 0]] * 4)

        with pytest.raises(ValueError):
            quad.apply_transform("center")

    def test_apply_transform_with_flattened_pose(self, quad):
        T = utils.get_transformation_matrix_from_xyz(rotation_xyz=[0, 0, 90], translation_xyz=[1, 2, 3])
        vertices = quad.vertices.copy()
        quad.apply_transform(T.ravel().tolist())
        assert np.allclose(quad.vertices, vertices @ T[:3, :3].T + T[:3, 3])

    def test_apply_scale_transform(self, quad):
        quad.apply_scale_transform(2, 3, 4)
        assert np.allclose(quad.vertices[3], [2, 3, 0])

    def test_extend(self, quad):
        quad.extend(vertices=np.ones((3, 3)), faces=np.array([[0, 1, 2]]))
        assert quad.num_vertices == 7
        assert np.all(quad.faces[-1] == [4, 5, 6])
        assert np.all(quad.colors[4:] == 0)
        assert np.all(quad.normals[4:] == 0)

        with pytest.raises(ValueError):
            mesh.Mesh(vertices=np.zeros((3, 3))).extend(vertices=np.ones((1, 3)), colors=np.ones((1, 3)))

    def test_add_cube(self):
        cubes = mesh.Mesh()
        cubes.add_cube(center=[0, 0, 0], sizes=[2, 4, 6])
        assert cubes.num_vertices == 8
        assert cubes.num_faces == 12
        assert not cubes.has_colors()
        assert np.allclose(cubes.vertices.min(axis=0), [-1, -2, -3])
        assert np.allclose(cubes.vertices.max(axis=0), [1, 2, 3])

        cubes.add_cube(center=[5, 5, 5], sizes=[1, 1, 1])
        assert cubes.num_vertices == 16
        assert cubes.faces[12:].min() == 8
        assert cubes.faces.max() == 15

    def test_add_cube_with_colors(self, quad):
        quad.add_cube(center=[0, 0, 0], sizes=[1, 1, 1], color=[0, 255, 0])
        assert len(quad.colors) == 12
        assert np.all(quad.colors[4:] == [0, 255, 0])
        assert np.all(quad.normals[4:] == 0)

        quad.add_cube(center=[0, 0, 0], sizes=[1, 1, 1])
        assert np.all(quad.colors[12:] == 0)

    def test_add_surfel(self, surfel):
        surfels = mesh.Mesh()
        surfels.add_surfel(surfel)
        assert surfels.num_vertices == 6
        assert surfels.num_faces == 4
        assert np.all(surfels.colors == [10, 20, 30])
        assert np.allclose(surfels.normals, [[0, 0, 1]] * 6)
        assert np.allclose((surfels.vertices - surfel.location) @ surfel.normal, 0)
        assert np.allclose(surfels.center(), surfel.location)
        assert np.isclose(np.linalg.norm(surfels.vertices[0] - surfel.location), surfel.radius)

        with pytest.raises(AssertionError):
            surfels.add_surfel(geometry.Surfel(normal=[0, 0, 0.5], radius=1.0))

    def test_add_point_from_surfel(self, surfel, triangle):
        points = mesh.Mesh()
        points.add_point_from_surfel(surfel)
        points.add_point_from_surfel(surfel)
        assert points.num_vertices == 2
        assert points.num_faces == 0
        assert np.all(points.colors == [10, 20, 30])

        with pytest.raises(ValueError):
            triangle.add_point_from_surfel(surfel)

    def test_add_mesh(self, quad):
        merged = mesh.Mesh()
        merged.add_mesh(quad)
        assert merged.num_vertices == quad.num_vertices
        merged.vertices[0] = [9, 9, 9]
        assert np.all(quad.vertices[0] == 0)

        merged.add_mesh(quad)
        assert merged.num_vertices == 8
        assert merged.num_faces == 4
        assert np.all(merged.faces[2:] == quad.faces + 4)
        assert len(merged.colors) == len(merged.normals) == 8

    def test_add_mesh_of_different_kind(self, quad, triangle):
        with pytest.raises(ValueError, match="Cannot merge different kind of meshes."):
            quad.add_mesh(triangle)

        triangle.add_mesh(quad)
        assert triangle.num_vertices == 7
        assert not triangle.has_colors()

    def test_compute_normals_from_faces(self):
        _mesh = mesh.Mesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0], [5, 5, 5]], faces=[[0, 1, 2]])
        _mesh.compute_normals_from_faces()
        assert np.allclose(_mesh.normals[:3], [[0, 0, 1]] * 3)
        assert np.all(_mesh.normals[3] == 0)

    def test_compute_vertex_face_map(self, quad):
        assert quad.compute_vertex_face_map() == [[0], [0, 1], [0, 1], [1]]

    def test_remove_duplicated_vertices(self):
        _mesh = mesh.Mesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 0, 0], [1, 1, 0]],
                          faces=[[0, 1, 2], [3, 4, 2]],
                          colors=[[0, 0, 0], [1, 1, 1], [2, 2, 2], [3, 3, 3], [4, 4, 4]])
        _mesh.remove_duplicated_vertices()
        assert np.all(np.isnan(_mesh.vertices[3]))
        assert np.all(_mesh.faces == [[0, 1, 2], [1, 4, 2]])

        _mesh.remove_isolated_vertices()
        assert _mesh.num_vertices == 4
        assert np.all(_mesh.faces == [[0, 1, 2], [1, 3, 2]])
        assert np.all(_mesh.colors[:, 0] == [0, 1, 2, 4])

    def test_remove_isolated_vertices_drops_faces(self):
        _mesh = mesh.Mesh(vertices=[[0, 0, 0], [np.nan] * 3, [0, 1, 0], [1, 1, 0]],
                          faces=[[0, 1, 2], [0, 2, 3]],
                          face_texcoords=np.arange(12).reshape(2, 3, 2))
        _mesh.remove_isolated_vertices()
        assert _mesh.num_vertices == 3
        assert np.all(_mesh.faces == [[0, 1, 2]])
        assert np.all(_mesh.face_texcoords == np.arange(6, 12).reshape(1, 3, 2))

    def test_to_open3d(self, quad):
        triangle_mesh = quad.to_open3d()
        assert isinstance(triangle_mesh, o3d.geometry.TriangleMesh)
        assert np.allclose(np.asarray(triangle_mesh.vertex_colors), quad.colors / 255)
        assert np.all(np.asarray(triangle_mesh.triangles) == quad.faces)

        point_cloud = quad.to_point_cloud()
        assert isinstance(point_cloud, o3d.geometry.PointCloud)
        assert point_cloud.has_colors() and point_cloud.has_normals()

    def test_from_open3d(self, quad):
        _mesh = mesh.Mesh.from_open3d(quad.to_open3d())
        assert np.all(_mesh.colors == quad.colors)
        assert np.allclose(_mesh.vertices, quad.vertices)
        assert np.all(_mesh.faces == quad.faces)

        _mesh = mesh.Mesh.from_open3d(quad.to_point_cloud())
        assert _mesh.num_faces == 0
        assert np.all(_mesh.colors == quad.colors)

        with pytest.raises(TypeError):
            mesh.Mesh.from_open3d(quad)

    def test_generate_mesh_from_plane(self):
        _mesh = mesh.Mesh()
        mesh.generate_mesh_from_plane(_mesh, plane=geometry.Plane(a=0, b=1, c=0, d=-1), center=[0, 0, 0],
                                      plane_size=1.0)
        assert _mesh.num_vertices == 4
        assert np.allclose(_mesh.vertices[:, 1], 1)
        assert np.allclose(_mesh.vertices[0], [-1, 1, -1])
        assert np.allclose(_mesh.vertices[3], [1, 1, 1])
        assert np.all(_mesh.faces == [[0, 1, 2], [2, 1, 3]])

        mesh.generate_mesh_from_plane(_mesh, plane=geometry.Plane(a=0, b=1, c=0, d=0), center=[0, 0, 0],
                                      plane_size=1.0)
        assert np.all(_mesh.faces[2:] == [[4, 5, 6], [6, 5, 7]])

    def test_generate_mesh_from_cube(self):
        _mesh = mesh.Mesh()
        mesh.generate_mesh_from_cube(_mesh, geometry.Box(x=0, y=0, z=0, width=1, height=2, depth=3))
        assert _mesh.num_vertices == 8
        assert _mesh.num_faces == 12
        assert np.allclose(_mesh.vertices.min(axis=0), 0)
        assert np.allclose(_mesh.vertices.max(axis=0), [1, 2, 3])
