import json
import numpy as np
import streamlit as st
import plotly.graph_objects as go

# Import kernel entry points
from surfacelab import config
from surfacelab.analysis import differential
from surfacelab.constraint import Continuity, SurfaceEdge
from surfacelab.entity import SurfaceEntity
from surfacelab.errors import ExchangeFormatError, KnotInsertionError
from surfacelab.exchange import export_scene, import_scene
from surfacelab.geometry import Vec3, create_bezier_patch
from surfacelab.history import (
    AddSurface, AttachPatch, DeleteSurface, InsertKnot, MoveEntry,
    MultiMoveControlPoints, SetConstraintType,
)
from surfacelab.logging_config import setup_logging
from surfacelab.presets import preset_surfaces
from surfacelab.scene import Scene


# --- Helper Functions for Session State ---

def new_scene() -> Scene:
    """
    Builds the starting scene: one group holding a flat Bezier patch.

    The initial patch is added through the transaction log and the log is
    then cleared, so the first undo cannot remove it.
    """
    scene = Scene()
    group = scene.add_group()
    scene.log.execute(AddSurface(group, SurfaceEntity(create_bezier_patch())))
    scene.log.clear()
    return scene


def surface_label(index: int, entity: SurfaceEntity) -> str:
    geo = entity.geometry
    return f"Surface {index + 1} ({geo.cp_count_u}x{geo.cp_count_v}, {entity.id[:6]})"


def rgba(color) -> str:
    r, g, b, a = color
    return f"rgba({int(r * 255)},{int(g * 255)},{int(b * 255)},{a:.2f})"


def add_surface_traces(fig: go.Figure, entity: SurfaceEntity, samples: int, color_mode: str):
    """
    Adds the tessellated surface of one entity to a Plotly figure.

    Args:
        fig: The Plotly figure object to add the trace to.
        entity: The surface entity to draw.
        samples: Tessellation samples per direction.
        color_mode: "Uniform" or "Gaussian Curvature".
    """
    mesh = entity.geometry.tessellate(samples, samples)
    tris = mesh.indices.reshape(-1, 3)
    opacity = 1.0 if entity.selected else entity.color[3]
    kwargs = dict(color=rgba(entity.color), opacity=opacity)
    if color_mode == "Gaussian Curvature":
        K = np.array([differential(entity.geometry, float(u), float(v))["K"] for u, v in mesh.uvs])
        K = np.nan_to_num(K, nan=0.0, posinf=1e3, neginf=-1e3)
        vmax = max(1e-9, float(np.max(np.abs(K))))
        kwargs = dict(intensity=K, colorscale="RdBu", cmin=-vmax, cmax=vmax, opacity=0.95)
    fig.add_trace(go.Mesh3d(
        x=mesh.vertices[:, 0], y=mesh.vertices[:, 2], z=mesh.vertices[:, 1],
        i=tris[:, 0], j=tris[:, 1], k=tris[:, 2],
        name=entity.id[:6], flatshading=False,
        lighting=dict(ambient=0.6, diffuse=0.7, roughness=0.9),
        **kwargs
    ))


def add_control_net(fig: go.Figure, entity: SurfaceEntity):
    """Adds control points and control polygons of the selected surface."""
    geo = entity.geometry
    P, W = geo.grid.to_numpy()
    m, n = geo.cp_count_u, geo.cp_count_v
    hover_pts = [f"i={i}, j={j}, w={W[i, j]:.3f}" for i in range(m) for j in range(n)]
    # Display is Z-up; the kernel is Y-up
    fig.add_trace(go.Scatter3d(
        x=P[:, :, 0].flatten(), y=P[:, :, 2].flatten(), z=P[:, :, 1].flatten(),
        mode="markers", name="Control Points",
        marker=dict(size=6, color='crimson', symbol='circle'),
        hovertext=hover_pts, hoverinfo='text'
    ))
    for j in range(n):
        fig.add_trace(go.Scatter3d(x=P[:, j, 0], y=P[:, j, 2], z=P[:, j, 1], mode="lines",
                                   line=dict(width=3, color='royalblue'), name="Ctrl poly (u)",
                                   showlegend=(j == 0)))
    for i in range(m):
        fig.add_trace(go.Scatter3d(x=P[i, :, 0], y=P[i, :, 2], z=P[i, :, 1], mode="lines",
                                   line=dict(width=3, color='darkorange', dash='dash'), name="Ctrl poly (v)",
                                   showlegend=(i == 0)))


# --- Main Streamlit Application Logic ---

def main():
    """
    Runs the multi-patch NURBS editor.

    Every edit made here is a kernel command executed through the scene's
    transaction log, so the Undo/Redo buttons cover all of them.
    """
    st.set_page_config(
        page_title="Tensor-Product Surface Lab",
        layout="wide",
        initial_sidebar_state="collapsed"
    )
    setup_logging(config.LOG_LEVEL)

    if 'scene' not in st.session_state:
        st.session_state.scene = new_scene()
    scene: Scene = st.session_state.scene
    log = scene.log

    st.title("Tensor-Product Surface Lab")

    # --- Top: History ---
    h1, h2, h3 = st.columns([1, 1, 4])
    with h1:
        if st.button("↶ Undo", disabled=not log.can_undo, use_container_width=True,
                     help=log.undo_description or "Nothing to undo"):
            log.undo()
            st.rerun()
    with h2:
        if st.button("↷ Redo", disabled=not log.can_redo, use_container_width=True,
                     help=log.redo_description or "Nothing to redo"):
            log.redo()
            st.rerun()
    with h3:
        st.caption(f"Next undo: {log.undo_description or 'nothing'} · Next redo: {log.redo_description or 'nothing'}")

    col1, col2 = st.columns([2, 1])

    # --- Right Column: Configuration Panel ---
    with col2:
        st.header("Configuration")

        if not scene.groups:
            st.info("The scene is empty.")
            if st.button("Add polysurface"):
                scene.add_group()
                st.rerun()
            return

        # --- Selection ---
        with st.container(border=True):
            st.subheader("Selection")
            group_names = [g.name for g in scene.groups]
            g_index = st.selectbox("Polysurface", range(len(scene.groups)),
                                   format_func=lambda i: group_names[i], key="group_selector")
            group = scene.groups[min(g_index, len(scene.groups) - 1)]

            entity = None
            if group.surfaces:
                s_index = st.selectbox("Surface", range(len(group.surfaces)),
                                       format_func=lambda i: surface_label(i, group.surfaces[i]),
                                       key="surface_selector")
                entity = group.surfaces[min(s_index, len(group.surfaces) - 1)]
            else:
                st.info("This polysurface has no surfaces.")
            for s in scene.all_surfaces():
                s.selected = s is entity

            presets = preset_surfaces()
            c1_add, c2_add = st.columns(2)
            with c1_add:
                preset_key = st.selectbox("Preset", list(presets.keys()), key="preset_selector")
            with c2_add:
                st.write("")
                if st.button("Add surface", use_container_width=True):
                    log.execute(AddSurface(group, SurfaceEntity(presets[preset_key]())))
                    st.rerun()
            if entity is not None and st.button("🗑 Delete surface", use_container_width=True):
                log.execute(DeleteSurface(group, entity))
                st.rerun()

        if entity is not None:
            geo = entity.geometry

            # --- Patch Attachment ---
            with st.container(border=True):
                st.subheader("Attach Patch")
                edge = st.selectbox("Edge", list(SurfaceEdge), format_func=lambda e: e.value,
                                    key="edge_selector")
                if st.button("➕ Attach patch", use_container_width=True):
                    log.execute(AttachPatch(group, entity, edge))
                    st.rerun()

            # --- Knot Insertion ---
            with st.expander("Knot Insertion", expanded=False):
                st.write(f"**U knots:** {', '.join(f'{k:.3f}' for k in geo.knots_u)}")
                st.write(f"**V knots:** {', '.join(f'{k:.3f}' for k in geo.knots_v)}")
                direction = st.radio("Direction", ["u", "v"], horizontal=True)
                t = st.slider("Knot value", 0.01, 0.99, 0.5, 0.01)
                if st.button("Insert knot", use_container_width=True):
                    try:
                        log.execute(InsertKnot(entity, float(t), direction))
                        st.rerun()
                    except KnotInsertionError as e:
                        st.error(str(e))

            # --- Control Net Editor ---
            with st.expander("Control Net", expanded=False):
                st.subheader("Control Point Editor")
                grid_data = []
                for i in range(geo.cp_count_u):
                    for j in range(geo.cp_count_v):
                        p = geo.control_point(i, j)
                        grid_data.append({"i": i, "j": j, "x": p.x, "y": p.y, "z": p.z,
                                          "w": geo.weight(i, j)})

                column_config = {
                    "i": st.column_config.NumberColumn(disabled=True),
                    "j": st.column_config.NumberColumn(disabled=True),
                    "x": st.column_config.NumberColumn(format="%.3f"),
                    "y": st.column_config.NumberColumn(format="%.3f"),
                    "z": st.column_config.NumberColumn(format="%.3f"),
                    "w": st.column_config.NumberColumn(format="%.3f", disabled=True),
                }
                edited_data = st.data_editor(
                    grid_data,
                    column_config=column_config,
                    num_rows="fixed",
                    use_container_width=True,
                    key=f"control_grid_editor_{entity.id}_{entity.revision}"
                )

                moves = []
                for before, after in zip(grid_data, edited_data):
                    old = Vec3(before["x"], before["y"], before["z"])
                    new = Vec3(float(after["x"]), float(after["y"]), float(after["z"]))
                    if new != old:
                        moves.append(MoveEntry(entity, before["i"], before["j"], old, new, group))
                if moves:
                    log.execute(MultiMoveControlPoints(moves))
                    st.rerun()

            # --- Constraints ---
            with st.expander("Constraints", expanded=False):
                constraints = group.constraints_for(entity)
                if not constraints:
                    st.info("No constraints on this surface.")
                for idx, c in enumerate(constraints):
                    kinds = list(Continuity)
                    label = f"{c.surface_a[:6]}:{c.edge_a.value} ↔ {c.surface_b[:6]}:{c.edge_b.value}"
                    kind = st.selectbox(label, kinds, index=kinds.index(c.kind),
                                        format_func=lambda k: k.value,
                                        key=f"constraint_{idx}_{id(c)}")
                    if kind is not c.kind:
                        log.execute(SetConstraintType(group, c, kind))
                        st.rerun()

                st.write("---")
                if st.button("Split surface into new polysurface", use_container_width=True,
                             help="Splitting is not undoable and clears the history."):
                    scene.attach_group(group.split([entity]))
                    log.clear()
                    st.rerun()

        # --- Sampling & Visualization Settings ---
        with st.expander("Sampling & Visualization"):
            samples = st.slider("Tessellation samples", 4, 60, config.DEFAULT_SAMPLES, 1,
                                help="Samples per direction for each surface mesh.")
            color_mode = st.selectbox("Surface coloring", ["Uniform", "Gaussian Curvature"],
                                      help="Curvature coloring evaluates the shape operator per vertex.")

        # --- Import / Export / Reset Section ---
        with st.expander("Import / Export / Reset"):
            uploaded = st.file_uploader("Import scene JSON", type=["json"], key="scene_upload")
            if uploaded is not None and st.button("Load uploaded scene", use_container_width=True):
                try:
                    st.session_state.scene = import_scene(json.load(uploaded))
                    st.success("✅ Scene imported successfully!")
                    st.rerun()
                except (ExchangeFormatError, json.JSONDecodeError) as e:
                    st.error(f"Import failed: {e}")

            scene_json = json.dumps(export_scene(scene), indent=2)
            st.download_button("💾 Save Scene", scene_json, file_name="scene.json", mime="application/json")

            if st.button("🔄 Reset to Default", use_container_width=True):
                st.session_state.scene = new_scene()
                st.rerun()

    # --- Left Column: 3D Visualization ---
    with col1:
        st.header("Visualization")
        fig = go.Figure()
        for g in scene.groups:
            for s in g.surfaces:
                add_surface_traces(fig, s, samples, color_mode)
                s.poll_dirty()
        if entity is not None:
            add_control_net(fig, entity)

        fig.update_layout(
            scene=dict(aspectmode="data"),
            margin=dict(l=0, r=0, t=0, b=0),
            legend=dict(orientation="h", yanchor="bottom", y=0.02),
            hovermode='closest',
            height=650
        )
        st.plotly_chart(fig, use_container_width=True, config={'displayModeBar': True})


if __name__ == "__main__":
    main()
